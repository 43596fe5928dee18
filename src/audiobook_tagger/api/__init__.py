"""External API clients for metadata resolution.

Submodules:
    audible         -- Audible catalog search via audible-cli
    google_books    -- Google Books volume search
    search          -- Fuzzy scoring of catalog results
    audiobookshelf  -- AudiobookShelf push and genre maintenance
"""
