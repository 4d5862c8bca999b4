"""Business logic and clients for storage, identity tokens, notifications and task jobs."""