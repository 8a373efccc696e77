"""Identity matching, review status and reviewer selection.

Key Components:
    - IdentityMatcher: Maps people between Azure DevOps and Slack by name
    - ReviewStatusAggregator: Groups pending reviews per person
    - ReviewerAssignmentPlanner: Chooses reviewers for a pull request
    - NotificationDispatcher: Sends review reports as direct messages
    - ReportService / AddReviewersService: One CLI run each
"""
