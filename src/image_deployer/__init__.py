"""
Image Deployer.

Pushes an exported container image archive straight to a registry over the
Distribution API and rolls the new tag out through a GitOps manifest commit.
"""
__version__ = "0.1.0"
