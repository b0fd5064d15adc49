"""Pure derivations from an event batch to a display-ready timeline."""
