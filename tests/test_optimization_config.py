"""
Test suite for the tuner and strategy settings.
"""

import pytest

from genetic_tuner.optimization_config import (
    CategoricalEncodingType,
    CmaEsStrategySettings,
    DifferentialEvolutionSettings,
    DifferentialEvolutionStrategySettings,
    InformationFlowType,
    TunerSettings,
)


class TestTunerSettings:
    """Test general settings."""

    def test_defaults(self):
        """Defaults are valid."""
        settings = TunerSettings()

        assert settings.max_genome_age == 3
        assert settings.categorical_encoding is CategoricalEncodingType.ORDINAL

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"population_size": 0},
            {"mutation_rate": 1.5},
            {"mutation_variance_percentage": 0.0},
            {"max_repair_attempts": -1},
        ],
    )
    def test_invalid_values(self, kwargs):
        """Out of range values are rejected."""
        with pytest.raises(ValueError):
            TunerSettings(**kwargs)

    def test_encoding_from_string(self):
        """Encodings may be given by name."""
        settings = TunerSettings(categorical_encoding="onehot")

        assert settings.categorical_encoding is CategoricalEncodingType.ONE_HOT


class TestStrategySettings:
    """Test the CMA-ES and JADE strategy settings."""

    def test_cma_es_replacement_rate(self):
        """CMA-ES accepts 0 or a rate in (0, 1]."""
        assert CmaEsStrategySettings(replacement_rate=0.0).replacement_rate == 0.0
        assert CmaEsStrategySettings(replacement_rate=1.0).replacement_rate == 1.0
        with pytest.raises(ValueError):
            CmaEsStrategySettings(replacement_rate=1.5)

    def test_cma_es_step_size(self):
        """The initial step size must be positive."""
        with pytest.raises(ValueError):
            CmaEsStrategySettings(initial_step_size=0.0)

    def test_jade_replacement_rate(self):
        """JADE accepts replacement rates up to 0.5."""
        assert DifferentialEvolutionStrategySettings(replacement_rate=0.5).replacement_rate == 0.5
        with pytest.raises(ValueError):
            DifferentialEvolutionStrategySettings(replacement_rate=0.6)

    def test_jade_engine_settings(self):
        """Percentages and means are validated."""
        with pytest.raises(ValueError):
            DifferentialEvolutionSettings(best_percentage=0.0)
        with pytest.raises(ValueError):
            DifferentialEvolutionSettings(initial_mean_mutation_factor=1.2)

    def test_information_flow(self):
        """Focusing on the incumbent means local information flow."""
        local = CmaEsStrategySettings(focus_on_incumbent=True)

        assert local.information_flow is InformationFlowType.LOCAL
        assert CmaEsStrategySettings().information_flow is InformationFlowType.GLOBAL

    def test_compatibility(self):
        """Continuations need equal settings up to a tolerance."""
        settings = CmaEsStrategySettings(focus_on_incumbent=True, replacement_rate=0.25, max_generations=10)
        close = CmaEsStrategySettings(focus_on_incumbent=True, replacement_rate=0.25 + 1e-9, max_generations=10)
        different = CmaEsStrategySettings(focus_on_incumbent=True, replacement_rate=0.5, max_generations=10)

        assert settings.is_compatible(close)
        assert not settings.is_compatible(different)
        assert not settings.is_compatible(DifferentialEvolutionStrategySettings(focus_on_incumbent=True))

    def test_replacement_rate_is_ignored_without_focus(self):
        """Without focus on the incumbent, the replacement rate does not matter."""
        assert CmaEsStrategySettings(replacement_rate=0.25).is_compatible(CmaEsStrategySettings(replacement_rate=0.75))

    def test_technical_compatibility(self):
        """The search point type depends on the focus and minimum domain size."""
        local = CmaEsStrategySettings(focus_on_incumbent=True)

        assert local.is_technically_compatible(CmaEsStrategySettings(focus_on_incumbent=True, initial_step_size=1.0))
        assert not local.is_technically_compatible(CmaEsStrategySettings())
        assert not local.is_technically_compatible(
            CmaEsStrategySettings(focus_on_incumbent=True, minimum_domain_size=10)
        )

    def test_jade_compatibility_checks_engine(self):
        """JADE settings are compatible only with compatible engine settings."""
        settings = DifferentialEvolutionStrategySettings()

        assert settings.is_compatible(DifferentialEvolutionStrategySettings())
        assert not settings.is_compatible(
            DifferentialEvolutionStrategySettings(
                differential_evolution=DifferentialEvolutionSettings(learning_rate=0.3)
            )
        )

    def test_dictionary_round_trip(self):
        """Settings survive the dictionary round trip."""
        cma_es = CmaEsStrategySettings(focus_on_incumbent=True, max_generations=12, initial_step_size=1.5)
        jade = DifferentialEvolutionStrategySettings(
            differential_evolution=DifferentialEvolutionSettings(best_percentage=0.3)
        )

        assert CmaEsStrategySettings.from_dict(cma_es.to_dict()) == cma_es
        assert DifferentialEvolutionStrategySettings.from_dict(jade.to_dict()) == jade
