"""Request classification for the admin activity trail."""
