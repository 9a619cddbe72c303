"""
Notification queue feature package.

Everything that moves a queued notification from ingestion to delivery
lives in this slice: domain models, repositories, pipeline services,
the periodic jobs and the HTTP routers.
"""
