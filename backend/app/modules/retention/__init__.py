"""Retention module: scheduled deletion of expired merged videos."""
