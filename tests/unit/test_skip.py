"""Unit tests for the label-based skip policy."""

from imagetest.core.skip import should_skip
from imagetest.inventory import Feature


class TestShouldSkip:
    """Test skip decisions."""

    def test_empty_filter_never_skips(self) -> None:
        """Test no runtime labels means no skipping."""
        features = [Feature("smoke", {"env": "dev"})]
        assert should_skip({}, features) is False

    def test_no_features_never_skips(self) -> None:
        """Test a harness without features is created."""
        assert should_skip({"env": "prod"}, []) is False

    def test_mismatched_value_skips(self) -> None:
        """Test a feature with a different value for a filter key skips."""
        assert should_skip({"env": "prod"}, [Feature("smoke", {"env": "dev"})]) is True

    def test_matching_value_does_not_skip(self) -> None:
        """Test a feature with the same value does not skip."""
        assert should_skip({"env": "prod"}, [Feature("smoke", {"env": "prod"})]) is False

    def test_missing_key_does_not_skip(self) -> None:
        """Test a feature without the filter key imposes no constraint."""
        assert should_skip({"env": "prod"}, [Feature("smoke", {"team": "a"})]) is False

    def test_any_mismatching_feature_skips_whole_harness(self) -> None:
        """Test one mismatching feature skips the harness despite others matching."""
        features = [
            Feature("smoke", {"env": "prod"}),
            Feature("load", {"env": "dev"}),
            Feature("docs", {}),
        ]
        assert should_skip({"env": "prod"}, features) is True

    def test_every_filter_key_checked(self) -> None:
        """Test a mismatch on any filter key skips."""
        features = [Feature("smoke", {"env": "prod", "arch": "arm64"})]
        assert should_skip({"env": "prod", "arch": "amd64"}, features) is True

    def test_extra_feature_labels_ignored(self) -> None:
        """Test feature labels absent from the filter are ignored."""
        features = [Feature("smoke", {"env": "prod", "team": "a"})]
        assert should_skip({"env": "prod"}, features) is False
