"""
Application Modules.

- notifier/: Notification dispatch service (contracts, templates, transports,
  queue consumers, lifecycle services, API, maintenance tasks)
"""
