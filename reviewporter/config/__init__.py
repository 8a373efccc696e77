"""Configuration for reviewporter.

Key Components:
    - ReviewporterSettings: Top-level settings with TOML/YAML loading
    - AzureConfig: Azure DevOps organization, project, team and repositories
    - SlackConfig: Slack workspace, usergroup and vacation statuses
    - ReviewersConfig: Required reviewer quota and developer teams

Example:
    >>> from reviewporter.config.settings import ReviewporterSettings
    >>> settings = ReviewporterSettings.from_file("reviewporter.toml")
    >>> settings.azure.project
"""
