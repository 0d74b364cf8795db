"""StudyPulse performance aggregation and predictive analytics backend."""
