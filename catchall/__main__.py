from catchall.main import main

main()
