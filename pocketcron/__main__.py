from pocketcron.cli import main

main()
