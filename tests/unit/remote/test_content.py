"""
Tests for answer content extraction and sanitization.
"""

import json

from remote.content import extract_from_object, extract_markdown, last_assistant_message, sanitize_markdown


class TestSanitize:

    def test_plain_markdown_unchanged(self):
        text = "# Report\n\n- **Owner:** Acme Corp\n- [Site](https://example.com)\n\n```json\n{}\n```"
        assert sanitize_markdown(text) == text

    def test_script_removed(self):
        text = "Before <script>alert('x')</script> after"
        assert sanitize_markdown(text) == "Before  after"

    def test_iframe_and_embed_removed(self):
        text = '<iframe src="https://evil"></iframe>ok<embed src="x"></embed>'
        assert sanitize_markdown(text) == "ok"

    def test_javascript_link_neutralized(self):
        assert sanitize_markdown("[click](javascript:steal) now") == "[click](#) now"

    def test_javascript_call_with_parentheses(self):
        text = "Intro <script>alert(1)</script>see [link](javascript:evil()) here"
        assert sanitize_markdown(text) == "Intro see [link](#) here"

    def test_data_link_neutralized_but_images_kept(self):
        assert sanitize_markdown("[x](data:text/html;base64,AAA)") == "[x](#)"
        image = "[pic](data:image/png;base64,AAA)"
        assert sanitize_markdown(image) == image


class TestExtractMarkdown:

    def test_plain_text_passes_through(self):
        assert extract_markdown("# Title\n\nBody") == "# Title\n\nBody"

    def test_field_priority(self):
        raw = json.dumps({"text": "from text", "markdown": "from markdown"})
        assert extract_markdown(raw) == "from markdown"

    def test_nested_report_object(self):
        raw = json.dumps({"report": {"content": "nested"}})
        assert extract_markdown(raw) == "nested"

    def test_array_uses_first_element(self):
        raw = json.dumps([{"output": "first"}, {"output": "second"}])
        assert extract_markdown(raw) == "first"

    def test_single_long_string_fallback(self):
        long_value = "x" * 150
        assert extract_from_object({"job_id": "abc", "summary_md": long_value}) == long_value

    def test_two_long_strings_are_ambiguous(self):
        assert extract_from_object({"a": "x" * 150, "b": "y" * 150}) is None

    def test_unmatched_json_returned_raw(self):
        raw = json.dumps({"status": "ok"})
        assert extract_markdown(raw) == raw

    def test_invalid_json_returned_raw(self):
        assert extract_markdown("{not json") == "{not json"


class TestLastAssistantMessage:

    def test_messages_key(self):
        data = {"messages": [
            {"role": "user", "content": "q"},
            {"role": "assistant", "content": "first"},
            {"role": "assistant", "content": "latest"},
        ]}
        assert last_assistant_message(data) == "latest"

    def test_nested_conversation(self):
        data = {"conversation": {"messages": [{"role": "AI", "content": "answer"}]}}
        assert last_assistant_message(data) == "answer"

    def test_no_assistant(self):
        assert last_assistant_message([{"role": "user", "content": "q"}]) is None
