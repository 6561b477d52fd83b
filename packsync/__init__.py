"""packsync - update synchronization core for a modpack client."""
