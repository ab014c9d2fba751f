from uplite.main import main

main()
