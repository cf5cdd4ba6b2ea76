"""Infrastructure adapters: database, HTTP, browser, model, scheduler, Discord."""
