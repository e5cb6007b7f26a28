"""Motor de alertas e incidencias del dashboard Breathe."""
