"""
Operations Layer

Business logic operations that compose database methods into workflows.
Operations modules handle multi-step transactions, validation, authorization
and business rules.

Architecture:
- Database layer: data access, the match workflow and the rating mutation point
- Operations layer: business logic composition and workflows
- Services layer: read-side projections (leaderboard, profiles) and storage

Each operations module focuses on a specific domain:
- AccessControl: roles and role administration
- MemberOperations: profiles, claim codes, deletion and import
- TournamentOperations: tournament lifecycle, registration, matches, standings
- ScheduleOperations: weekly sessions
- PhotoOperations: gallery and homepage banner
"""
