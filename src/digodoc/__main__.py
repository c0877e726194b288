from digodoc.cli import main

main()
