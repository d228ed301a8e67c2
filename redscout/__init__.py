"""RedScout — Reddit keyword and context search backend."""
