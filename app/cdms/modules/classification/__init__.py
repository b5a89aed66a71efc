"""
Classification: Standards, their Sections (at most two levels deep) and
Document Types. Sections sort by code with numeric-aware ordering.
"""
