"""
Prompt templates for the language-model calls made by the pipeline.

Every template asks for JSON (or, for analysis, fixed section headers) so the
response can be parsed without trusting the model to emit nothing else.
"""

import json
from typing import Any

MEETING_COMPARISON_PROMPT = """### Role
You compare calendar meetings to decide whether a new meeting has already been logged as a time entry.

### New Meetings
{new_meetings}

### Previously Posted Meetings
{posted_meetings}

### Rules
- Judge each new meeting against every posted meeting
- Signals: title and description similarity, date and start time, actual attended duration
- Recurring meetings share a title; treat them as DIFFERENT instances when they occur on different dates
  or when their actual durations differ significantly
- actualDuration is in seconds and is the strongest signal for recurring meetings

### Output Requirements
Return ONLY valid JSON (no backticks, no prose) in this shape, with one entry per new meeting:
{{
  "results": [
    {{
      "meetingId": "string (id of the new meeting)",
      "isDuplicate": true|false,
      "confidence": 0.0-1.0,
      "reason": "string",
      "matchingCriteria": {{
        "titleMatch": true|false,
        "dateMatch": true|false,
        "durationMatch": true|false
      }}
    }}
  ]
}}"""


TASK_MATCHING_PROMPT = """### Role
You match a meeting to the most relevant work tasks so the meeting time can be logged against them.

### Meeting Details
{meeting_analysis}

### Available Tasks
{tasks_data}

### Output Requirements
Return ONLY valid JSON (no backticks, no prose) in this shape:
{{
  "matchedTasks": [
    {{
      "taskId": "string",
      "taskTitle": "string",
      "meetingDetails": {{
        "subject": "string",
        "startTime": "string",
        "endTime": "string",
        "actualDuration": number
      }},
      "confidence": 0.0-1.0,
      "reason": "string"
    }}
  ]
}}

### Rules
1. Only include tasks with meaningful relevance to the meeting
2. Prefer active tasks; use project, module and description as context
3. Give a clear reason for each match
4. actualDuration is the user's attended time from the attendance records, in seconds
5. Include every field for every task; return an empty matchedTasks list when nothing fits"""


MEETING_ANALYSIS_PROMPT = """### Role
You analyze a work meeting so it can later be matched to a task in a time-tracking system.

### Meeting
{meeting_data}

### Output Requirements
Answer with exactly these section headers, each on its own line and followed by its content:

Key Points:
- one short bullet per point discussed or implied by the subject and preview

Categories:
- one bullet per work category (e.g. planning, review, support, client call)

Relevance:
a number between 0 and 1 for how clearly this meeting relates to billable work

Confidence:
a number between 0 and 1 for how confident you are in this analysis

Context:
- one bullet per recurring pattern (e.g. weekly sync, sprint ceremony)"""


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def build_comparison_prompt(new_meetings: list[dict], posted_meetings: list[dict]) -> str:
    return MEETING_COMPARISON_PROMPT.format(
        new_meetings=_dump(new_meetings),
        posted_meetings=_dump(posted_meetings),
    )


def build_task_matching_prompt(meeting_analysis: dict, tasks: list[dict]) -> str:
    return TASK_MATCHING_PROMPT.format(
        meeting_analysis=_dump(meeting_analysis),
        tasks_data=_dump(tasks),
    )


def build_analysis_prompt(meeting_data: str) -> str:
    return MEETING_ANALYSIS_PROMPT.format(meeting_data=meeting_data)
