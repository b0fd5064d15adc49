"""kub-timeline: swimlane timeline of Kubernetes resource events."""

__version__ = "0.1.0"
