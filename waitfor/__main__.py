from .gate import main

main()
