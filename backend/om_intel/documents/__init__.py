"""Document parsing, OCR and chunking."""
