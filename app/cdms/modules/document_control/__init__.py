"""
Document Control: the version lifecycle of controlled documents.

- One active document per reference code; archived rows keep theirs for history
- New versions bump current_version; amend and review never do
- Archiving writes an immutable snapshot before the document is flagged
- Meaningful actions are recorded to the append-only audit trail
"""
