"""HTTP plumbing for resumeup."""
