"""Testing helpers – fakes for the storage and transport ports."""
