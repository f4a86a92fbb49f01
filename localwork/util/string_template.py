from dataclasses import dataclass, field
from typing import Any, Sequence


@dataclass(frozen=True)
class StringTemplate:
    """
    A template string validated up front to use only the named fields, so a typo in
    a skeleton fails at import rather than when a user creates a record.

    >>> StringTemplate("# {title}", ["title"]).format(title="Hello")
    '# Hello'
    """

    template: str

    allowed_fields: Sequence[str] = field(default_factory=lambda: ["title"])

    def __post_init__(self):
        try:
            self.template.format(**{name: "x" for name in self.allowed_fields})
        except KeyError as e:
            raise ValueError(f"Template contains unsupported variable: {e}")
        except (IndexError, ValueError) as e:
            raise ValueError(f"Invalid template: {e}")

    def format(self, **kwargs: Any) -> str:
        unexpected = set(kwargs) - set(self.allowed_fields)
        if unexpected:
            raise ValueError(f"Unexpected template fields: {', '.join(sorted(unexpected))}")
        values = {name: "" for name in self.allowed_fields}
        values.update(kwargs)
        return self.template.format(**values)


## Tests


def test_string_template():
    t = StringTemplate("{name} on {date}", ["name", "date"])
    assert t.format(name="Standup", date="2024-03-01") == "Standup on 2024-03-01"
    assert t.format(name="Standup") == "Standup on "

    try:
        StringTemplate("{name} {age}", ["name"])
        assert False, "Should have raised ValueError"
    except ValueError as e:
        assert "Template contains unsupported variable: 'age'" in str(e)

    try:
        t.format(age=3)
        assert False, "Should have raised ValueError"
    except ValueError as e:
        assert "Unexpected template fields: age" in str(e)
