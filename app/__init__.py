"""
Campus Placement Drive Service
Drive lifecycle and eligibility engine for campus placements.

Architecture:
- PostgreSQL: Structured data (students, drives, applications, phases)
- MongoDB: In-app notifications
- Coordinators run drives, advisors onboard students, students apply
"""

__version__ = "1.0.0"
