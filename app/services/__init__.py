# Services package - business logic and external integrations
