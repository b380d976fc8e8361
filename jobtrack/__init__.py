"""
jobtrack auth guard core: rate limiting, security event history and
background job scheduling for the job-application tracker.
"""

__version__ = "0.1.0"
