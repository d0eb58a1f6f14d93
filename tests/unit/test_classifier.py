"""Unit tests for category classification."""

import pytest

from email_unifier.classification import CategoryClassifier, classify
from email_unifier.models import Provider, UniversalCategory, is_universal_category


class TestCategoryClassifier:
    """Test suite for CategoryClassifier."""

    @pytest.fixture
    def classifier(self) -> CategoryClassifier:
        return CategoryClassifier()

    def test_gmail_table_order_wins(self, classifier: CategoryClassifier) -> None:
        """Test that the first table entry present wins, not the first label."""
        assert classifier.classify(["UNREAD", "IMPORTANT", "INBOX"], Provider.GMAIL) == "INBOX"
        assert classifier.classify(["CATEGORY_SOCIAL", "IMPORTANT"], Provider.GMAIL) == "IMPORTANT"

    def test_gmail_category_tabs(self, classifier: CategoryClassifier) -> None:
        """Test that Gmail category tabs map onto universal categories."""
        assert classifier.classify(["CATEGORY_PROMOTIONS", "UNREAD"], "gmail") == "PROMOTIONS"
        assert classifier.classify(["CATEGORY_FORUMS"], "gmail") == "FORUMS"

    def test_matching_is_case_insensitive(self, classifier: CategoryClassifier) -> None:
        """Test case-insensitive matching."""
        assert classifier.classify(["inbox"], Provider.GMAIL) == "INBOX"
        assert classifier.classify("Sent Items", Provider.OUTLOOK) == "SENT"
        assert classifier.classify("JunkEmail", Provider.OUTLOOK) == "SPAM"

    def test_unmatched_label_becomes_custom(self, classifier: CategoryClassifier) -> None:
        """Test that unknown labels keep their information as CUSTOM:<name>."""
        assert classifier.classify(["Label_42"], Provider.GMAIL) == "CUSTOM:Label_42"
        assert classifier.classify("Projects", Provider.OUTLOOK) == "CUSTOM:Projects"

    def test_gmail_status_labels_are_not_custom(self, classifier: CategoryClassifier) -> None:
        """Test that status-only labels fall through to OTHER."""
        assert classifier.classify(["UNREAD"], Provider.GMAIL) == "OTHER"

    def test_labels_win_over_folder_context(self, classifier: CategoryClassifier) -> None:
        """Test that a Gmail message's own labels decide over the synced label."""
        result = classifier.classify(["TRASH"], Provider.GMAIL, folder_context="INBOX")

        assert result == "TRASH"

    def test_folder_context_is_a_fallback(self, classifier: CategoryClassifier) -> None:
        """Test that the folder context decides when the labels match nothing."""
        assert classifier.classify(["UNREAD"], Provider.GMAIL, folder_context="SENT") == "SENT"
        assert classifier.classify([], Provider.OUTLOOK, folder_context="Drafts") == "DRAFT"

    def test_ses_vocabulary(self, classifier: CategoryClassifier) -> None:
        """Test the inbound channel table."""
        assert classifier.classify(["SPAM"], Provider.SES) == "SPAM"
        assert classifier.classify(["INBOX"], Provider.SES) == "INBOX"

    @pytest.mark.parametrize("provider", list(Provider))
    @pytest.mark.parametrize("labels", [[], None, "", "   ", [None, 3, ""], 42])
    def test_classification_is_total(self, classifier, provider, labels) -> None:
        """Test that empty or odd inputs always classify as OTHER."""
        assert classifier.classify(labels, provider) == UniversalCategory.OTHER.value

    def test_unknown_provider(self, classifier: CategoryClassifier) -> None:
        """Test that an unknown provider is not an error."""
        assert classifier.classify(["INBOX"], "yahoo") == "OTHER"

    def test_results_are_universal(self, classifier: CategoryClassifier) -> None:
        """Test that every result belongs to the universal vocabulary."""
        inputs = [["INBOX"], ["Label_1"], ["UNREAD"], "archive", "Somewhere"]
        for provider in Provider:
            for labels in inputs:
                assert is_universal_category(classifier.classify(labels, provider))

    def test_module_level_shortcut(self) -> None:
        """Test the module-level classify function."""
        assert classify(["TRASH"], Provider.GMAIL) == "TRASH"
