"""imgrelay models package.

Defines the data contracts shared by the relay pipeline:

  - outcome.py   — FetchSuccess / FetchFailure (the fetcher's tagged result),
                   FailureKind, RelayError
  - responses.py — builders for the image response and the JSON error response
"""
