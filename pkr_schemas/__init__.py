"""JSON Schemas shipped with the portable packer."""
