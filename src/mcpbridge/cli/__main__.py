"""Entry point for CLI execution as a module."""

if __name__ == "__main__":
    from mcpbridge.cli.run import main

    main()
