"""Hydra structured config dataclasses.

These mirror the Pydantic ``ProjectConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``ProjectConfig`` via
``cli._to_project_config()``; the request fields become a ``GenerationRequest``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hydra.core.config_store import ConfigStore


@dataclass
class AzureConf:
    api_key: str = "${oc.env:AZURE_OPENAI_API_KEY,''}"
    api_version: str = "${oc.env:AZURE_OPENAI_API_VERSION,''}"
    endpoint: str = "${oc.env:AZURE_OPENAI_ENDPOINT,''}"


@dataclass
class ModelEndpointOverrideConf:
    endpoint: str = ""
    api_key: str | None = None
    api_version: str | None = None
    api_type: str | None = None


@dataclass
class ModelConf:
    default: str = "gpt-5.2"
    generator: str | None = None
    overrides: dict[str, ModelEndpointOverrideConf] = field(default_factory=dict)


@dataclass
class ScoringConf:
    validation_weight: float = 0.7
    size_weight: float = 0.3
    retry_penalty: int = 10
    min_size_ratio: float = 0.5
    expected_sizes: dict[str, int] = field(default_factory=lambda: {
        "build_config": 1200,
        "plugin_descriptor": 200,
        "main_class": 900,
        "command": 900,
        "listener": 700,
        "feature": 900,
        "config": 150,
        "resource": 100,
    })


@dataclass
class PpgConf:
    # --- CLI-only fields ---
    mode: str = "run"                     # run | plan | validate
    no_input: bool = False
    verbose: bool = False
    quiet: bool = False
    input_dir: str = ""

    # --- Request fields (GenerationRequest) ---
    name: str = ""
    alias: str | None = None
    prompt: str = ""
    user_id: str = ""
    features: list[str] = field(default_factory=list)
    use_incremental_mode: bool = True
    use_agents: bool = True

    # --- ProjectConfig fields ---
    output_dir: str = "output/"

    # Azure OpenAI
    azure: AzureConf = field(default_factory=AzureConf)
    models: ModelConf = field(default_factory=ModelConf)

    # Engine
    max_attempts: int = 3
    max_parallel: int = 1
    session_timeout: float | None = None
    include_build_file: bool = False
    min_quality_score: int = 0
    timeout: int = 120
    seed: int = 42

    scoring: ScoringConf = field(default_factory=ScoringConf)

    enabled_checks: dict[str, bool] = field(default_factory=lambda: {
        "syntax": True,
        "dependency_satisfaction": True,
        "naming_consistency": True,
        "duplicate_definitions": True,
    })


# Keys in PpgConf that are NOT part of ProjectConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "no_input", "verbose", "quiet", "input_dir",
})

REQUEST_KEYS = frozenset({
    "name", "alias", "prompt", "user_id", "features", "use_incremental_mode", "use_agents",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore.

    Two entries are stored:
    - ``ppg_schema`` — referenced by user config files via ``defaults: [ppg_schema]``
    - ``config`` — fallback when no ``--config-dir`` is provided (e.g. ``ppg mode=plan``)
    """
    cs = ConfigStore.instance()
    cs.store(name="ppg_schema", node=PpgConf)
    cs.store(name="config", node=PpgConf)
