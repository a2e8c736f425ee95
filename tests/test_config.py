"""
Tests for engine configuration.
"""

import pytest
import yaml

from clonelsh.config import (
    CloneThresholds,
    EmbeddingConfig,
    EngineConfig,
    LSHConfig,
    ParserConfig,
    QueryDefaults,
)
from clonelsh.errors import ConfigurationError


class TestDefaults:
    """Test default values."""

    def test_engine_defaults(self):
        """Test the documented defaults."""
        config = EngineConfig()
        assert (config.lsh.num_tables, config.lsh.num_bits, config.lsh.dimension) == (20, 12, 384)
        assert config.lsh.multi_probe is True
        assert config.lsh.num_probes == 3
        assert config.lsh.max_bucket_size == 1000
        assert config.embedding.model_type == "tfidf"
        assert config.embedding.max_vocab_size == 50000
        assert config.embedding.ngram_size == 2
        assert config.embedding.sublinear_tf and config.embedding.smooth_idf
        assert (config.parser.min_block_tokens, config.parser.max_block_tokens) == (10, 500)
        assert config.thresholds == CloneThresholds(0.99, 0.95, 0.85, 0.70)
        assert config.query.min_similarity == 0.80
        assert config.query.max_results == 100


class TestValidation:
    """Test parameter validation."""

    @pytest.mark.parametrize("kwargs", [
        {"num_bits": 65},
        {"num_bits": 0},
        {"num_tables": 0},
        {"dimension": -1},
        {"max_bucket_size": 0},
        {"num_probes": -1},
        {"seed": -5},
    ])
    def test_lsh(self, kwargs):
        """Test that out-of-range LSH parameters are refused."""
        with pytest.raises(ConfigurationError):
            LSHConfig(**kwargs)

    def test_sixty_four_bits_allowed(self):
        """Test the upper bound of K."""
        assert LSHConfig(num_bits=64).num_bits == 64

    def test_embedding(self):
        """Test embedding parameter checks."""
        with pytest.raises(ConfigurationError):
            EmbeddingConfig(max_vocab_size=0)
        with pytest.raises(ConfigurationError):
            EmbeddingConfig(model_type="word2vec")

    def test_parser(self):
        """Test that the token range must be ordered."""
        with pytest.raises(ConfigurationError):
            ParserConfig(min_block_tokens=50, max_block_tokens=10)

    @pytest.mark.parametrize("values", [
        (0.95, 0.99, 0.85, 0.70),
        (0.99, 0.95, 0.95, 0.70),
        (1.2, 0.95, 0.85, 0.70),
        (0.99, 0.95, 0.85, -0.1),
    ])
    def test_thresholds(self, values):
        """Test that bands must be strictly decreasing within [0, 1]."""
        with pytest.raises(ConfigurationError):
            CloneThresholds(*values)

    def test_query_defaults(self):
        """Test query default checks."""
        with pytest.raises(ConfigurationError):
            QueryDefaults(min_similarity=1.5)
        with pytest.raises(ConfigurationError):
            QueryDefaults(max_results=0)

    def test_dimension_mismatch(self):
        """Test that LSH and embedding dimensions must agree."""
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig(lsh=LSHConfig(dimension=128), embedding=EmbeddingConfig(dimension=256))
        assert exc_info.value.parameter == "dimension"

    def test_error_is_value_error(self):
        """Test that configuration errors are also ValueErrors."""
        with pytest.raises(ValueError):
            LSHConfig(num_bits=100)


class TestDictConversion:
    """Test dictionary round trips."""

    def test_round_trip(self):
        """Test to_dict/from_dict."""
        config = EngineConfig(lsh=LSHConfig(num_tables=4, dimension=32),
                              embedding=EmbeddingConfig(model_type="hashing", dimension=32))
        assert EngineConfig.from_dict(config.to_dict()) == config

    def test_empty(self):
        """Test that an empty mapping gives defaults."""
        assert EngineConfig.from_dict({}) == EngineConfig()
        assert EngineConfig.from_dict(None) == EngineConfig()

    def test_dimension_propagates(self):
        """Test that a dimension set in one section applies to both."""
        config = EngineConfig.from_dict({"lsh": {"dimension": 128}})
        assert config.embedding.dimension == 128
        config = EngineConfig.from_dict({"embedding": {"dimension": 64}})
        assert config.lsh.dimension == 64

    def test_unknown_key(self):
        """Test that misspelled keys are refused."""
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig.from_dict({"lsh": {"num_table": 4}})
        assert exc_info.value.parameter == "lsh"

    def test_unknown_section(self):
        """Test that unknown sections are refused."""
        with pytest.raises(ConfigurationError):
            EngineConfig.from_dict({"parsers": {}})

    def test_section_must_be_mapping(self):
        """Test that a scalar section is refused."""
        with pytest.raises(ConfigurationError):
            EngineConfig.from_dict({"parser": 5})


class TestFiles:
    """Test YAML configuration files."""

    def test_save_and_load(self, tmp_path):
        """Test a YAML round trip."""
        path = tmp_path / "conf" / ".clonelsh.yml"
        config = EngineConfig(lsh=LSHConfig(num_tables=6, num_bits=16, dimension=96),
                              embedding=EmbeddingConfig(dimension=96))
        config.save_to_file(path)
        assert yaml.safe_load(path.read_text())["lsh"]["num_bits"] == 16
        assert EngineConfig.load_from_file(path) == config

    def test_partial_file(self, tmp_path):
        """Test that omitted sections take defaults."""
        path = tmp_path / "config.yml"
        path.write_text("thresholds:\n  type4: 0.6\nquery:\n  max_results: 5\n")
        config = EngineConfig.load_from_file(path)
        assert config.thresholds.type4 == 0.6
        assert config.query.max_results == 5
        assert config.lsh == LSHConfig()

    def test_missing_file(self, tmp_path):
        """Test that load_from_file needs an existing file."""
        with pytest.raises(FileNotFoundError):
            EngineConfig.load_from_file(tmp_path / "absent.yml")

    def test_invalid_yaml(self, tmp_path):
        """Test that malformed YAML is a configuration error."""
        path = tmp_path / "bad.yml"
        path.write_text("lsh: [unclosed\n")
        with pytest.raises(ConfigurationError):
            EngineConfig.load_from_file(path)

    def test_load_or_default(self, tmp_path, monkeypatch):
        """Test the fallback to defaults."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        assert EngineConfig.load_or_default(tmp_path / "absent.yml") == EngineConfig()
        assert EngineConfig.load_or_default() == EngineConfig()

        (tmp_path / ".clonelsh.yml").write_text("query:\n  max_results: 7\n")
        assert EngineConfig.load_or_default().query.max_results == 7
