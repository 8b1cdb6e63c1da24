"""Medical Conformance - batch FHIR conformance validation.

Key Responsibilities:
    - Validate FHIR resources (JSON or XML) against structure definitions and
      requested profiles
    - Run batches over directories or in-memory collections with bounded
      concurrency, progress reporting and cancellation
    - Render HTML, JSON, CSV, console and CI reports from a batch result

Collaborators:
    - Upstream: The ``medical-conformance`` CLI and pipeline callers
    - Downstream: :mod:`Medical_Conformance.validation`,
      :mod:`Medical_Conformance.reporting`
"""

__version__ = "0.1.0"
