"""Click subcommands registered on the ``cpmkeeper`` group."""
