from monovisor.cli import main

main()
