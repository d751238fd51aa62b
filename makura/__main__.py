from makura.cli import main

main()
