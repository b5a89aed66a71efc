"""Reference code allocation: prefix building, availability checks and suggestions."""
