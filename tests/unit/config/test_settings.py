"""Tests for application settings."""

from sidea.config.settings import (
    DEFAULT_MIN_CONFIDENCE,
    MusicBrainzSettings,
    SearchSettings,
    Settings,
    VisionSettings,
)


class TestVisionSettings:
    """Test vision threshold handling."""

    def test_default_threshold(self) -> None:
        """Test the default minimum confidence."""
        assert VisionSettings().min_confidence == DEFAULT_MIN_CONFIDENCE == 90

    def test_valid_threshold_kept(self) -> None:
        """Test an in-range threshold is used as-is."""
        assert VisionSettings(min_confidence=75).min_confidence == 75
        assert VisionSettings(min_confidence=0).min_confidence == 0
        assert VisionSettings(min_confidence=100).min_confidence == 100

    def test_out_of_range_threshold_falls_back(self) -> None:
        """Test an invalid threshold falls back to the default instead of failing."""
        assert VisionSettings(min_confidence=150).min_confidence == DEFAULT_MIN_CONFIDENCE
        assert VisionSettings(min_confidence=-5).min_confidence == DEFAULT_MIN_CONFIDENCE

    def test_threshold_from_env(self, monkeypatch) -> None:  # type: ignore[no-untyped-def]
        """Test VISION_MIN_CONFIDENCE is read from the environment."""
        monkeypatch.setenv("VISION_MIN_CONFIDENCE", "80")
        assert VisionSettings().min_confidence == 80

    def test_api_keys_from_plain_env_names(self, monkeypatch) -> None:  # type: ignore[no-untyped-def]
        """Test API keys use the vendors' usual env variable names."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        settings = VisionSettings()
        assert settings.openai_api_key == "sk-test"
        assert settings.anthropic_api_key == "sk-ant-test"


class TestSettings:
    """Test top-level settings."""

    def test_user_agent_format(self) -> None:
        """Test the MusicBrainz-style User-Agent."""
        settings = Settings(
            musicbrainz=MusicBrainzSettings(app_name="SideA", app_version="1.2.3", contact="me@x.org")
        )
        assert settings.user_agent == "SideA/1.2.3 ( me@x.org )"

    def test_search_defaults(self) -> None:
        """Test merge engine defaults."""
        search = SearchSettings()
        assert search.fallback_threshold == 5
        assert search.result_cap == 30
