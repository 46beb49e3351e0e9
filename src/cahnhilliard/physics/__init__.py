"""Free energy and variational derivative of the double-well model."""
