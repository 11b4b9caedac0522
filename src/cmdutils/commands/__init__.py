"""CLI sub-commands for cmdutils."""
