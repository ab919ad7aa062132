"""Room namespaces.

A room is a directory under the storage root named after its sanitized id.
Rooms have no creation event of their own: the first upload materializes the
directory, and the core never removes it.
"""
