from queueprint.cli import main

main()
