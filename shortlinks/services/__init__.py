"""
Business logic for short links.

Services take an AsyncSession and raise ShortLinksError subclasses; the API
layer turns those into HTTP responses.
"""
