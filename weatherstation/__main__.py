from weatherstation.cli import main

main()
