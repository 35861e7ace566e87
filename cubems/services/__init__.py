"""Analytics engines, application services and the service container."""
