"""
Tests for word-preservation validation.
"""

from context_enricher.validation import (
    extract_annotations,
    strip_annotations,
    validate_batch,
    validate_enhancement,
)


class TestStripAnnotations:
    """Tests for annotation removal."""

    def test_removes_annotation_and_leading_space(self):
        assert strip_annotations("word [[note]], next") == "word, next"

    def test_non_greedy(self):
        assert strip_annotations("a [[x]] b [[y]] c") == "a b c"

    def test_extract(self):
        assert extract_annotations("He [[John]] met them [[the board]].") == ["John", "the board"]


class TestValidateEnhancement:
    """Tests for the single-block validation rules."""

    def test_added_annotation_is_valid(self):
        assert validate_enhancement("Hello world", "Hello [[greeting]] world").valid

    def test_company_example(self):
        assert validate_enhancement("The company grew", "The company [[ACME Corp]] grew")

    def test_unchanged_text_is_valid(self):
        assert validate_enhancement("Nothing to add here.", "Nothing to add here.").valid

    def test_missing_is_invalid(self):
        result = validate_enhancement("Hello world", None)
        assert not result.valid
        assert result.reason == "missing"
        assert validate_enhancement("Hello world", "   ").reason == "missing"

    def test_changed_word_is_invalid(self):
        result = validate_enhancement("The company grew", "The firm [[ACME]] grew")
        assert not result.valid
        assert "word 2" in result.reason

    def test_removed_word_is_invalid(self):
        result = validate_enhancement("The company grew fast", "The company [[ACME]] grew")
        assert not result.valid
        assert "word count" in result.reason

    def test_reordered_words_are_invalid(self):
        assert not validate_enhancement("one two three", "two one [[x]] three").valid

    def test_merged_tokens_are_invalid(self):
        assert not validate_enhancement("Hello world", "Helloworld").valid

    def test_comparison_is_case_sensitive(self):
        assert not validate_enhancement("Hello world", "hello [[x]] world").valid

    def test_whitespace_changes_are_tolerated(self):
        assert validate_enhancement("Hello  world\nagain", "Hello [[x]] world again").valid

    def test_typographic_quotes_are_normalized(self):
        original = 'He said "hi" and it\'s fine'
        enhanced = "He [[Bob]] said “hi” and it’s fine"
        assert validate_enhancement(original, enhanced).valid

    def test_existing_annotations_must_survive(self):
        original = "The firm [[ACME]] grew"
        assert validate_enhancement(original, "The [[new]] firm [[ACME]] grew").valid
        assert not validate_enhancement(original, "The firm grew").valid

    def test_annotation_in_link_target_is_invalid(self):
        original = "See [the docs](https://example.com/page) for details."
        enhanced = "See [the docs](https://example.com/[[x]]page) for details."
        assert not validate_enhancement(original, enhanced).valid

    def test_annotation_after_link_is_valid(self):
        original = "See [the docs](https://example.com/page) for details."
        enhanced = "See [the docs](https://example.com/page) [[the user manual]] for details."
        assert validate_enhancement(original, enhanced).valid

    def test_annotation_in_inline_code_is_invalid(self):
        original = "Run `make all` to build it."
        enhanced = "Run `make [[the build]] all` to build it."
        assert not validate_enhancement(original, enhanced).valid

    def test_existing_annotation_in_inline_code_is_kept(self):
        original = "Use `[[Page Name]]` to link to another page."
        assert validate_enhancement(original, original).valid
        assert validate_enhancement(original, "Use `[[Page Name]]` [[wiki syntax]] to link to another page.").valid

    def test_existing_annotation_in_link_target_is_kept(self):
        original = "See [the page](https://wiki.example.com/[[Page]]) for more."
        assert validate_enhancement(original, original).valid

    def test_second_annotation_in_code_with_existing_one_is_invalid(self):
        original = "Use `[[Page Name]]` to link."
        enhanced = "Use `[[Page Name]] [[x]]` to link."
        assert not validate_enhancement(original, enhanced).valid

    def test_memoised(self):
        validate_enhancement.cache_clear()
        validate_enhancement("Hello world", "Hello [[x]] world")
        validate_enhancement("Hello world", "Hello [[x]] world")
        assert validate_enhancement.cache_info().hits == 1


class TestValidateBatch:
    """Tests for batch-level classification."""

    def test_single_block_accepted(self):
        outcome = validate_batch({"BLOCK_001": "Hello world"}, {"BLOCK_001": "Hello [[greeting]] world"})

        assert outcome.all_valid
        assert outcome.validated == {"BLOCK_001": "Hello [[greeting]] world"}

    def test_missing_key_fails(self):
        originals = {"BLOCK_001": "Hello world", "BLOCK_002": "Good morning"}

        outcome = validate_batch(originals, {"BLOCK_001": "Hello [[x]] world"})

        assert outcome.failed_keys == ("BLOCK_002",)
        assert list(outcome.validated) == ["BLOCK_001"]

    def test_failures_in_original_order(self):
        originals = {"BLOCK_001": "a b", "BLOCK_002": "c d", "BLOCK_003": "e f"}
        enhanced = {"BLOCK_003": "x", "BLOCK_002": "c [[y]] d", "BLOCK_001": "z"}

        outcome = validate_batch(originals, enhanced)

        assert outcome.failed_keys == ("BLOCK_001", "BLOCK_003")

    def test_non_string_values_fail(self):
        outcome = validate_batch({"BLOCK_001": "a b"}, {"BLOCK_001": 42})
        assert outcome.failed_keys == ("BLOCK_001",)

    def test_extra_keys_are_ignored(self):
        outcome = validate_batch({"BLOCK_001": "a b"}, {"BLOCK_001": "a b", "BLOCK_099": "zzz"})
        assert outcome.validated == {"BLOCK_001": "a b"}
