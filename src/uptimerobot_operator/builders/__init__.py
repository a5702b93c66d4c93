"""Builders that turn resource specs into UptimeRobot API payloads."""
