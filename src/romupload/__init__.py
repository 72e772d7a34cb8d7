"""romupload - upload device build release artifacts with the pd uploader."""
