"""FastAPI surface for the scraping pipeline and the stream relay."""
