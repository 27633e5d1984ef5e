"""specstate - approval workflow state synchronization.

Tracks the four-dimension approval state of capabilities, enablers and
story cards as they move through the workflow phases, reconciling
document-derived content with a versioned backing store.
"""

__version__ = "0.3.0"
