"""Infrastructure: configuration, time, health, async helpers and polling."""
