"""Pure derivations over normalized entities, plus the summary service."""
