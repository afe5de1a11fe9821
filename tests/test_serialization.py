"""Tests for the todo line codec."""

from vault_calendar_sync.dates import is_date_time, parse_line_date_time
from vault_calendar_sync.models import Todo
from vault_calendar_sync.serialization import MAX_PARSE_RUNS, TodoRegularExpressions, TodoSerializer

serializer = TodoSerializer()


class TestSerialize:
    def test_component_order(self):
        todo = Todo(
            content="Plan trip",
            tags=["#travel"],
            priority="🔼",
            start_date_time="2024-01-01",
            scheduled_date_time="2024-01-02",
            due_date_time="2024-01-05",
            done_date_time="2024-01-04",
            block_id="AB12CD34",
        )
        assert serializer.serialize(todo) == (
            "Plan trip #travel 🔼 🛫 2024-01-01 ⌛ 2024-01-02 🗓 2024-01-05 ✅ 2024-01-04 ^AB12CD34"
        )

    def test_missing_fields_are_omitted(self):
        todo = Todo(content="Buy milk", start_date_time="2024-01-01", block_id="AB12CD34")
        assert serializer.serialize(todo) == "Buy milk 🛫 2024-01-01 ^AB12CD34"

    def test_date_time_uses_line_format(self):
        todo = Todo(content="Meet", start_date_time=parse_line_date_time("2024-01-03@09:30"))
        assert serializer.serialize(todo) == "Meet 🛫 2024-01-03@09:30"

    def test_tags_already_in_content_are_not_repeated(self):
        todo = Todo(content="Call Bob #work", tags=["#work"])
        assert serializer.serialize(todo) == "Call Bob #work"


class TestDeserialize:
    def test_call_bob(self):
        details = serializer.deserialize("Call Bob #work ⏫ ^XY9")

        assert details.content == "Call Bob #work"
        assert details.tags == ["#work"]
        assert details.priority == "⏫"
        assert details.block_id == "XY9"
        assert details.start_date_time is None
        assert details.scheduled_date_time is None
        assert details.due_date_time is None
        assert details.done_date_time is None

    def test_tokens_in_any_order(self):
        details = serializer.deserialize("Write report 🗓 2024-01-05 ^R1 ⏫ 🛫 2024-01-01")

        assert details.content == "Write report"
        assert details.priority == "⏫"
        assert details.block_id == "R1"
        assert details.start_date_time == "2024-01-01"
        assert details.due_date_time == "2024-01-05"

    def test_tags_mixed_between_tokens_keep_their_order(self):
        details = serializer.deserialize("Do something #tag1 🗓 2024-01-02 #tag2")

        assert details.content == "Do something #tag1 #tag2"
        assert details.tags == ["#tag1", "#tag2"]
        assert details.due_date_time == "2024-01-02"

    def test_url_fragment_is_not_a_tag(self):
        details = serializer.deserialize("Read http://example.com/page#anchor")
        assert details.tags == []
        assert details.content == "Read http://example.com/page#anchor"

    def test_date_time_token(self):
        details = serializer.deserialize("Meet 🛫 2024-01-03@09:30")
        assert is_date_time(details.start_date_time)
        assert details.content == "Meet"

    def test_alternate_emoji_and_variation_selector(self):
        details = serializer.deserialize("Pay rent \U0001F4C5\ufe0f 2024-01-05 ⏳ 2024-01-04")
        assert details.due_date_time == "2024-01-05"
        assert details.scheduled_date_time == "2024-01-04"
        assert details.content == "Pay rent"

    def test_invalid_date_stays_in_content(self):
        details = serializer.deserialize("Fix clock 🛫 2024-13-45")
        assert details.start_date_time is None
        assert details.content == "Fix clock 🛫 2024-13-45"

    def test_plain_text(self):
        details = serializer.deserialize("  just words  ")
        assert details.content == "just words"
        assert details.block_id is None


class TestTermination:
    def test_repeated_priorities(self):
        line = "Task " + " ".join(["⏫"] * (MAX_PARSE_RUNS * 3))
        details = serializer.deserialize(line)
        assert details.priority == "⏫"
        assert details.content.startswith("Task")

    def test_many_tags(self):
        line = "Task " + " ".join(f"#t{i}" for i in range(MAX_PARSE_RUNS * 2))
        details = serializer.deserialize(line)
        assert details.content == line
        assert details.tags == [f"#t{i}" for i in range(MAX_PARSE_RUNS * 2)]

    def test_token_like_garbage(self):
        line = "🛫 🛫 ^ ^^ ✅ 🗓 2024-99-99 #" * 10
        details = serializer.deserialize(line)
        assert details.start_date_time is None


class TestRoundTrip:
    def test_full_todo(self):
        todo = Todo(
            content="Call Bob #work",
            tags=["#work"],
            priority="⏫",
            start_date_time="2024-01-01",
            scheduled_date_time="2024-01-02",
            due_date_time=parse_line_date_time("2024-01-03@17:00"),
            done_date_time="2024-01-04",
            block_id="XY9",
        )
        parsed = serializer.deserialize(serializer.serialize(todo)).to_todo()

        assert parsed.identical_to(todo)
        assert parsed.done_date_time == todo.done_date_time

    def test_tags_not_in_content(self):
        todo = Todo(content="Plan", tags=["#home", "#weekend"], start_date_time="2024-01-06")
        parsed = serializer.deserialize(serializer.serialize(todo))

        assert parsed.tags == ["#home", "#weekend"]
        assert parsed.content == "Plan #home #weekend"
        assert parsed.start_date_time == "2024-01-06"


class TestLineExpressions:
    def test_todo_line(self):
        match = TodoRegularExpressions.todo_regex.match("  > - [x] Done thing ^A1")
        assert match.group(3) == "x"
        assert match.group(4) == "Done thing ^A1"

    def test_numbered_list(self):
        match = TodoRegularExpressions.todo_regex.match("1. [ ] First")
        assert match.group(3) == " "

    def test_not_a_task(self):
        assert TodoRegularExpressions.todo_regex.match("- plain bullet") is None


class TestTagsInsideText:
    def test_tag_inside_text_stays_in_place(self):
        details = serializer.deserialize("Email #work team 🛫 2024-01-01 ^AB12")

        assert details.content == "Email #work team"
        assert details.tags == ["#work"]
        assert details.block_id == "AB12"

    def test_inner_and_trailing_tags(self):
        details = serializer.deserialize("Email #work team #urgent ⏫")

        assert details.content == "Email #work team #urgent"
        assert details.tags == ["#work", "#urgent"]
        assert details.priority == "⏫"

    def test_round_trip_with_tag_inside_text(self):
        todo = Todo(content="Email #work team", tags=["#work"], start_date_time="2024-01-01")
        parsed = serializer.deserialize(serializer.serialize(todo)).to_todo()

        assert parsed.content == "Email #work team"
        assert parsed.identical_to(todo)
