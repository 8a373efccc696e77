"""Domain models shared by the providers and the engine.

Key Models:
    - DirectoryPerson / MessagingPerson: A person in Azure DevOps / Slack
    - Team: Azure DevOps team and its members
    - PullRequest / Reviewer / Vote: Pull request reviewer state
    - UserProfile: Live Slack profile (vacation status)
    - MatchResult: Outcome of a cross-system name match
    - ReviewerPlan: Reviewers selected for one pull request
    - DispatchResult / AssignmentResult: Per-person and per-PR run outcomes
"""
