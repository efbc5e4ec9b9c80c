from edgelab.cli.commands import main

main()
