from procforge.cli import main

main()
