# Services layer for the reservation lifecycle
