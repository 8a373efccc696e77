"""Clients for the two external systems.

Key Components:
    - DirectoryClient: Abstract source-control client (teams, pull requests)
    - MessagingClient: Abstract messaging client (usergroups, profiles, DMs)
    - AzureDevOpsProvider: Azure DevOps REST implementation
    - SlackProvider: Slack Web API implementation
"""
