"""Client for the notification event stream."""
