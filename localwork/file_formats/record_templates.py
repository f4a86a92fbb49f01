"""
Body skeletons for new records. These are starting points for the user to fill in;
the header is built separately so its values are always formatted by the codec.
"""

from localwork.model.records_model import NoteType
from localwork.util.string_template import StringTemplate

TASK_BODY = StringTemplate(
    """
## Description

[Detailed description of the task]

## Objectives

- [ ] Objective 1

## Notes

[Observations and notes during execution]

## Acceptance Criteria

- [ ] Criterion 1
""",
    allowed_fields=["title"],
)

NOTE_BODIES = {
    NoteType.daily: StringTemplate(
        """
# {date} - Daily Notes

## What I worked on today

-

## Blockers / Issues

-

## Tomorrow's plan

-
""",
        allowed_fields=["date", "title"],
    ),
    NoteType.meetings: StringTemplate(
        """
# Meeting: {title}

**Date:** {date}
**Time:** {time}
**Participants:**

## Agenda

1.

## Decisions Made

-

## Action Items

- [ ] Action 1 - @assignee
""",
        allowed_fields=["date", "time", "title"],
    ),
    NoteType.technical: StringTemplate(
        """
# ADR-{adr_id}: {title}

## Context

[What is the issue motivating this decision or change?]

## Decision

[What is the change we're proposing and/or doing?]

## Consequences

-
""",
        allowed_fields=["adr_id", "title"],
    ),
    NoteType.learning: StringTemplate(
        """
# TIL: {title}

## What I learned

[Brief description of what you learned]

## Resources

-
""",
        allowed_fields=["title"],
    ),
}
