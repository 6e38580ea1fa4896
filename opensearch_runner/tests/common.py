import typing as tp

import pytest

from opensearch_runner.utils import configuration

SKIPIF_NO_ENGINE = pytest.mark.skipif(
    configuration.ENGINE_HOME is None and configuration.ENGINE_BIN is None,
    reason="needs an OpenSearch distribution in `OPENSEARCH_HOME`",
)


def hypothesis_settings(max_examples: int = 100) -> tp.Any:
    import hypothesis

    return hypothesis.settings(
        max_examples=max_examples,
        deadline=None,
        suppress_health_check=(
            hypothesis.HealthCheck.too_slow,
            hypothesis.HealthCheck.function_scoped_fixture,
        ),
    )
