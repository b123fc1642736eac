type Word = bytes
type WordCount = dict[Word, int]
