"""
Tests for environment configuration (docstitch/config.py) and the
command-line interface (docstitch/cli.py).

Run: python -m pytest tests/test_config_cli.py -q
"""

import pytest

from docstitch import cli
from docstitch.config import DocStitchConfig
from docstitch.errors import ConfigurationError


class TestEnvironment:
    def test_defaults(self):
        config = DocStitchConfig()
        assert config.llm_provider == "auto"
        assert config.window_size == 50
        assert config.window_slack == 10
        assert config.boundary_depth == 2
        assert not config.parallel_windows
        assert config.prefer_native_pdf
        assert config.pipeline == "auto"

    def test_values_are_cast(self, monkeypatch):
        monkeypatch.setenv("DOCSTITCH_WINDOW_SIZE", "30")
        monkeypatch.setenv("DOCSTITCH_PARALLEL", "yes")
        monkeypatch.setenv("DOCSTITCH_PREFER_NATIVE_PDF", "false")
        monkeypatch.setenv("DOCSTITCH_UNIT_TIMEOUT", "12.5")
        config = DocStitchConfig()
        assert config.window_size == 30
        assert config.parallel_windows is True
        assert config.prefer_native_pdf is False
        assert config.unit_timeout == 12.5

    def test_empty_value_uses_default(self, monkeypatch):
        monkeypatch.setenv("DOCSTITCH_WINDOW_SLACK", "")
        assert DocStitchConfig().window_slack == 10

    def test_is_configured(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "g")
        config = DocStitchConfig()
        assert config.is_configured("gemini")
        assert not config.is_configured("claude")
        assert not config.is_configured("ollama")
        config.ollama_enabled = True
        assert config.is_configured("ollama")


class TestValidate:
    def test_nothing_configured(self):
        with pytest.raises(ConfigurationError, match="No LLM provider"):
            DocStitchConfig().validate()

    def test_explicit_provider_needs_its_key(self):
        config = DocStitchConfig(llm_provider="claude", gemini_api_key="g")
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            config.validate()

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError, match="Invalid"):
            DocStitchConfig(llm_provider="bard").validate()

    def test_window_settings(self):
        with pytest.raises(ConfigurationError):
            DocStitchConfig(openai_api_key="o", window_size=0).validate()
        with pytest.raises(ConfigurationError):
            DocStitchConfig(openai_api_key="o", window_slack=-1).validate()

    def test_unknown_pipeline(self):
        with pytest.raises(ConfigurationError, match="DOCSTITCH_PIPELINE"):
            DocStitchConfig(openai_api_key="o", pipeline="turbo").validate()

    def test_configuration_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            DocStitchConfig().validate()

    def test_valid(self):
        DocStitchConfig(openai_api_key="o").validate()


class TestApplyArgs:
    def _apply(self, argv, **config_values):
        args = cli._build_parser().parse_args(argv)
        return cli.apply_args(DocStitchConfig(**config_values), args)

    def test_overrides(self):
        config = self._apply(
            ["doc.pdf", "-p", "claude", "-m", "claude-x", "-w", "2", "--window-size", "20", "--slack", "0",
             "--parallel", "--copyrighted", "--no-native", "--no-formulas", "--extract-images",
             "--pipeline", "full"]
        )
        assert config.llm_provider == "claude"
        assert config.anthropic_model == "claude-x"
        assert config.max_workers == 2
        assert config.window_size == 20
        assert config.window_slack == 0
        assert config.parallel_windows
        assert config.has_copyrighted_content
        assert not config.prefer_native_pdf
        assert not config.preserve_formulas
        assert config.extract_images
        assert config.pipeline == "full"

    def test_model_without_provider_is_ignored(self, capsys):
        config = self._apply(["doc.pdf", "-m", "some-model"], openai_model="keep")
        assert config.openai_model == "keep"
        assert "--model needs an explicit --provider" in capsys.readouterr().out

    def test_no_options_keep_config(self):
        config = self._apply(["doc.pdf"], window_slack=7)
        assert config.window_slack == 7
        assert config.llm_provider == "auto"


class TestMain:
    def test_list_providers(self, monkeypatch, capsys):
        monkeypatch.setenv("GROQ_API_KEY", "q")
        cli.main(["--list-providers"])
        lines = capsys.readouterr().out.splitlines()
        assert [line.split()[0] for line in lines] == ["claude", "gemini", "openai", "groq", "ollama"]
        groq = [line for line in lines if line.startswith("groq")][0]
        assert " configured " in groq
        assert "not configured" in lines[0]

    def test_missing_pdf_path(self):
        with pytest.raises(SystemExit):
            cli.main([])

    def test_configuration_error_exits(self, tmp_path, capsys):
        pdf = tmp_path / "x.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        with pytest.raises(SystemExit) as info:
            cli.main([str(pdf)])
        assert info.value.code == 1
        assert "No LLM provider" in capsys.readouterr().err

    def test_missing_file_exits(self, monkeypatch, capsys):
        monkeypatch.setenv("OPENAI_API_KEY", "o")
        with pytest.raises(SystemExit) as info:
            cli.main(["/nonexistent/doc.pdf"])
        assert info.value.code == 1
        assert "not found" in capsys.readouterr().err
