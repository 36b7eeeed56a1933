from tests.fakes import make_task
from timesync.services.matching.keyword_matcher import KeywordMatcher, find_keyword_match, tokenize


def test_tokenize_splits_on_separators_and_drops_single_characters():
    assert tokenize("Q1-Review_notes a  B") == ["q1", "review", "notes"]
    assert tokenize(None) == []


def test_token_overlap_matches_title_project_and_module():
    task = make_task(title="Sprint Planning & Retro", project="Internal", module="Scrum")

    hit = find_keyword_match("Sprint Planning", task)

    assert hit is not None
    assert hit.matched_keywords == ["sprint", "planning"]
    assert hit.pattern is None
    assert 'task "sprint planning & retro" (internal)' in hit.reason


def test_tokens_match_by_containment():
    task = make_task(title="Onboarding materials", project="HR")

    hit = find_keyword_match("New hire onboard", task)

    assert hit is not None
    assert hit.matched_keywords == ["onboard"]


def test_common_pattern_matches_when_tokens_do_not():
    task = make_task(title="Agile ceremonies", project="Delivery", module="Process")

    hit = find_keyword_match("Backlog grooming", task)

    assert hit is not None
    assert hit.matched_keywords == []
    assert hit.pattern is not None
    assert hit.reason.startswith('Matched common pattern "sprint"')


def test_no_match_returns_none():
    task = make_task(title="Database migration", project="Platform", module="Storage")

    assert find_keyword_match("Lunch", task) is None


def test_matcher_ranks_by_matched_keyword_count(test_settings):
    tasks = [
        make_task("1", title="Sprint Demo", project="Web", module="Frontend"),
        make_task("2", title="Sprint Planning", project="Web", module="Frontend"),
        make_task("3", title="Database migration", project="Platform", module="Storage"),
    ]

    candidates = KeywordMatcher(test_settings).match("Sprint Planning", tasks)

    assert [c.task_id for c in candidates] == ["2", "1"]
    assert all(c.confidence == test_settings.KEYWORD_MATCH_CONFIDENCE for c in candidates)
    assert all(c.source == "keyword" for c in candidates)
    assert candidates[0].project == "Web"


def test_matcher_returns_empty_list_without_hits(test_settings):
    tasks = [make_task(title="Database migration", project="Platform", module="Storage")]

    assert KeywordMatcher(test_settings).match("Lunch", tasks) == []
