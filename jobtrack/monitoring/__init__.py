"""
Monitoring & Observability package

Includes:
- metrics: Prometheus counters for rate limiting, security events and
  scheduled job dispatch
"""
