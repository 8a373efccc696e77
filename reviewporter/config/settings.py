"""
Configuration system using Pydantic for type-safe settings management.

The configuration file is TOML (``*.toml``) or YAML (``*.yaml``/``*.yml``)
and has three sections: ``azure``, ``slack`` and an optional ``reviewers``
section that drives reviewer assignment.

Example (TOML)::

    [azure]
    base_url = "https://dev.azure.com/contoso/"
    token = "${AZURE_TOKEN}"
    project = "Platform"
    team_name = "Platform Team"
    repositories = ["backend", "frontend"]

    [slack]
    token = "${SLACK_TOKEN}"
    team_id = "T0123"
    usergroup_id = "S0456"

    [reviewers]
    required_reviewers_count = 2

    [[reviewers.teams]]
    name = "Backend"
    required_reviewers_team = "Backend Leads"
"""

from __future__ import annotations

import os
import re
import tomllib
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, HttpUrl, SecretStr
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from reviewporter.exceptions import ConfigurationError


class AzureConfig(BaseModel):
    """Azure DevOps connection and team settings."""

    base_url: HttpUrl = Field(..., description="Organization URL, e.g. https://dev.azure.com/contoso/")
    token: SecretStr = Field(..., description="Personal access token")
    project: str = Field(..., description="Project name")
    team_name: str = Field(..., description="Team whose members receive reports and are added as optional reviewers")
    repositories: list[str] = Field(default_factory=list, description="Repositories scanned by send-reports")


class SlackConfig(BaseModel):
    """Slack workspace settings."""

    token: SecretStr = Field(..., description="Bot token")
    team_id: str = Field(..., description="Workspace id")
    usergroup_id: str = Field(..., description="Usergroup whose members can be messaged")
    vacation_statuses: list[str] = Field(
        default_factory=lambda: ["Vacationing"],
        description="Profile status texts that mark a user as on vacation (case-insensitive)",
    )


class DeveloperTeamConfig(BaseModel):
    """A developer team and its optional dedicated reviewer team."""

    name: str = Field(..., description="Azure DevOps team name")
    required_reviewers_team: str | None = Field(
        default=None, description="Team that supplies additional required reviewers"
    )


class ReviewersConfig(BaseModel):
    """Reviewer assignment settings."""

    required_reviewers_count: int = Field(default=0, ge=0, description="Required reviewers per pull request")
    teams: list[DeveloperTeamConfig] = Field(default_factory=list, description="Developer teams")


class ReviewporterSettings(BaseSettings):
    """Top-level settings.

    Environment variables override values from the file, e.g.
    ``REVIEWPORTER_SLACK__TOKEN`` replaces ``slack.token`` and keeps the
    rest of the ``slack`` section.
    """

    model_config = SettingsConfigDict(
        env_prefix="REVIEWPORTER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    azure: AzureConfig
    slack: SlackConfig
    reviewers: ReviewersConfig = Field(default_factory=ReviewersConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, file_secret_settings

    @classmethod
    def from_file(cls, config_path: str | Path) -> ReviewporterSettings:
        """Load settings from a TOML or YAML file.

        ``${VAR_NAME}`` and ``${VAR_NAME:-default}`` placeholders are
        substituted from the environment before parsing.

        Raises:
            ConfigurationError: If the file is missing, unreadable, malformed,
                or fails validation
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            content = config_file.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            content = cls._interpolate_env_vars(content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        config_dict = cls._parse(content, config_file)

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _parse(content: str, config_file: Path) -> dict:
        suffix = config_file.suffix.lower()
        if suffix in (".yaml", ".yml"):
            try:
                config_dict = yaml.safe_load(content)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML syntax in {config_file}: {e}") from e
        elif suffix == ".toml":
            try:
                config_dict = tomllib.loads(content)
            except tomllib.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML syntax in {config_file}: {e}") from e
        else:
            raise ConfigurationError(f"Unsupported configuration format: {config_file.name} (use .toml or .yaml)")

        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a table/mapping at the top level")
        return config_dict

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Replace ``${VAR}`` / ``${VAR:-default}`` with environment values.

        Comment lines (starting with ``#``) are left untouched, so both TOML
        and YAML files can document placeholders.

        Raises:
            ValueError: If a variable without default is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))

